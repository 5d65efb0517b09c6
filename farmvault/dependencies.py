from fastapi import HTTPException, Request
from fastapi.templating import Jinja2Templates

from farmvault.auth import Principal, Role, assert_company_scope
from farmvault.services.project_service import list_projects


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def resolve_company_id(request: Request, principal: Principal) -> int:
    """Developers pick a company with ?company_id=; everyone else is pinned to their own."""
    raw = request.query_params.get('company_id', '').strip()
    if principal.role == Role.DEVELOPER:
        if raw.isdigit():
            return int(raw)
        if principal.company_id is not None:
            return principal.company_id
        raise HTTPException(status_code=400, detail='Select a company first')
    if principal.company_id is None:
        raise HTTPException(status_code=403, detail='No company assigned')
    if raw.isdigit():
        assert_company_scope(principal, int(raw))
    return principal.company_id


def company_path(path: str, principal: Principal, company_id: int | None) -> str:
    """Carry a developer's company selection across redirects."""
    if principal.role != Role.DEVELOPER or company_id is None:
        return path
    separator = '&' if '?' in path else '?'
    return f'{path}{separator}company_id={company_id}'


def company_url(request: Request, path: str) -> str:
    principal = getattr(request.state, 'principal', None)
    raw = request.query_params.get('company_id', '').strip()
    if not principal or not raw.isdigit():
        return path
    return company_path(path, principal, int(raw))


def pick_project(db, request: Request, company_id: int):
    """Return the company's projects and the one chosen with ?project_id= (first by default)."""
    projects = list_projects(db, company_id=company_id)
    raw = request.query_params.get('project_id', '').strip()
    selected = None
    if raw.isdigit():
        selected = next((project for project in projects if project.id == int(raw)), None)
        if selected is None:
            raise HTTPException(status_code=404, detail='Project not found')
    elif projects:
        selected = projects[0]
    return projects, selected
