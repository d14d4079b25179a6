# atlas_core/api/routes.py
from fastapi import APIRouter

from atlas_core.modules.assistant import routers as assistant
from atlas_core.modules.crm import routers as crm
from atlas_core.modules.geocoding import routers as geocoding
from atlas_core.modules.metrics import routers as metrics
from atlas_core.modules.people import routers as people
from atlas_core.modules.sales import routers as sales
from atlas_core.modules.survey import routers as survey

api_router = APIRouter()

# People & session
api_router.include_router(people.auth_router, prefix="/auth")
api_router.include_router(people.session_router)
api_router.include_router(people.users_router, prefix="/users")

# CRM
api_router.include_router(crm.customers_router, prefix="/customers")
api_router.include_router(crm.opportunities_router, prefix="/opportunities")

# Sales, inventory & reports
api_router.include_router(sales.orders_router, prefix="/orders")
api_router.include_router(sales.my_router, prefix="/my")
api_router.include_router(sales.promoters_router, prefix="/promoters")
api_router.include_router(sales.products_router, prefix="/products")
api_router.include_router(sales.inventory_router, prefix="/inventory")
api_router.include_router(sales.reports_router)

# Dashboard & tools
api_router.include_router(metrics.router, prefix="/metrics")
api_router.include_router(assistant.router, prefix="/ai")
api_router.include_router(geocoding.router, prefix="/geocode")
api_router.include_router(survey.router)
