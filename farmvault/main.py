import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from farmvault.auth import Role, get_current_principal
from farmvault.config import settings
from farmvault.dependencies import company_url
from farmvault.routers import admin, auth, challenges, harvest, inventory, operations, projects, reports
from farmvault.security.csrf import install_csrf_cookie_middleware
from farmvault.security.headers import install_security_headers
from farmvault.security.sessions import install_auth_session_middleware
from farmvault.services.inventory_service import format_quantity

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

app = FastAPI(title='FarmVault')

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def _csrf_token(request: Request) -> str:
    return getattr(request.state, 'csrf_token', '')


app.state.templates.env.globals['csrf_token'] = _csrf_token
app.state.templates.env.globals['company_url'] = company_url
app.state.templates.env.globals['currency'] = settings.currency_label
app.state.templates.env.filters['qty'] = format_quantity

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(projects.router)
app.include_router(inventory.router)
app.include_router(harvest.router)
app.include_router(operations.router)
app.include_router(challenges.router)
app.include_router(admin.router)
app.include_router(reports.router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 401:
        return RedirectResponse('/login', status_code=303)
    return request.app.state.templates.TemplateResponse(
        'error.html',
        {'request': request, 'status_code': exc.status_code, 'detail': exc.detail},
        status_code=exc.status_code,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return request.app.state.templates.TemplateResponse(
        'error.html',
        {'request': request, 'status_code': 500, 'detail': 'Something went wrong. Please try again.'},
        status_code=500,
    )


@app.get('/')
def root(request: Request):
    principal = get_current_principal(request)
    if principal.role == Role.DEVELOPER:
        return RedirectResponse('/admin/companies', status_code=303)
    return RedirectResponse('/projects', status_code=303)


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'


@app.get('/healthz', response_class=PlainTextResponse)
def healthz() -> str:
    return 'ok'
