import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.booking.rate_limiter import RateLimiter
from clinic_backend.core import config
from clinic_backend.database import Base, engine, ensure_booking_schema
from clinic_backend.models import appointment, doctor, patient, schedule, user  # noqa: F401
from clinic_backend.routes import auth_routes, availability_routes, booking_routes, doctor_routes

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='Clinic Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.state.booking_rate_limiter = RateLimiter(
    max_requests=config.BOOKING_RATE_LIMIT,
    window_seconds=config.BOOKING_RATE_WINDOW_SECONDS,
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Clinic Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(doctor_routes.router, prefix='/doctors')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(booking_routes.router, prefix='/appointments')
