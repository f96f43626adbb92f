from fastapi import APIRouter
from hivcare.api.v1.appointments import routes as appointments
from hivcare.api.v1.treatment_plans import routes as treatment_plans
from hivcare.api.v1.payments import routes as payments

api_router = APIRouter()
api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(treatment_plans.router, prefix="/treatment-plans", tags=["treatment-plans"])
api_router.include_router(
    treatment_plans.schedules_router, prefix="/medication-schedules", tags=["medication-schedules"]
)
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(payments.momo_router, prefix="/momo-payment", tags=["momo-payment"])
