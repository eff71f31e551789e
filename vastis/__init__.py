"""
Vastis: healthcare booking backend (patients, practitioners, gyms, admin).

Layout:
- config.py          : settings read from the environment (.env)
- db.py              : SQLAlchemy engine and sessions
- auth_models.py     : user accounts
- models.py          : ORM models and enums of the domain
- services.py        : shared data access (CRUD, appointments, payments, notifications)
- admin_service.py   : admin dashboard, invitations, catalog
- doctor_service.py  : practitioner profile, schedule, patients, treatments
- gym_service.py     : gym profile, images, opening hours, practitioner requests
- patient_service.py : booking, insurance, provider search, forms
- storage.py         : file buckets on disk
- api_main.py        : FastAPI application (routers in routes/)
- cli.py             : command line for admin tasks and the notification sender
"""
