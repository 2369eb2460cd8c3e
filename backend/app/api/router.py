from fastapi import APIRouter

from app.api.routes import automation
from app.api.routes import candidates
from app.api.routes import cron
from app.api.routes import outreach
from app.api.routes import questionnaire
from app.api.routes import telegram
from app.api.routes import test_tasks

api_router = APIRouter()
api_router.include_router(candidates.router)
api_router.include_router(automation.router)
api_router.include_router(outreach.router)
api_router.include_router(questionnaire.router)
api_router.include_router(questionnaire.public_router)
api_router.include_router(test_tasks.router)
api_router.include_router(test_tasks.public_router)
api_router.include_router(telegram.router)
api_router.include_router(cron.router)
