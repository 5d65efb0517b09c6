from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

from fastapi import HTTPException

TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def form_str(form, key: str, default: str = '') -> str:
    return str(form.get(key, default) or '').strip()


def form_optional_str(form, key: str) -> str | None:
    return form_str(form, key) or None


def form_bool(form, key: str) -> bool:
    return form_str(form, key).lower() in TRUE_VALUES


def form_decimal(form, key: str, *, label: str | None = None, required: bool = True) -> Decimal | None:
    raw = form_str(form, key)
    if raw == '':
        if required:
            raise HTTPException(status_code=400, detail=f'{label or key} is required')
        return None
    try:
        value = Decimal(raw.replace(',', ''))
    except InvalidOperation as exc:
        raise HTTPException(status_code=400, detail=f'Invalid number for {label or key}') from exc
    if not value.is_finite():
        raise HTTPException(status_code=400, detail=f'Invalid number for {label or key}')
    return value


def form_int(form, key: str, *, label: str | None = None, required: bool = True) -> int | None:
    raw = form_str(form, key)
    if raw == '':
        if required:
            raise HTTPException(status_code=400, detail=f'{label or key} is required')
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid whole number for {label or key}') from exc


def form_date(form, key: str, *, label: str | None = None, default: date | None = None) -> date | None:
    raw = form_str(form, key)
    if raw == '':
        return default
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid date for {label or key}') from exc


def form_int_list(form, key: str) -> list[int]:
    values: list[int] = []
    for raw in form.getlist(key):
        raw = str(raw).strip()
        if not raw:
            continue
        if not raw.isdigit():
            raise HTTPException(status_code=400, detail=f'Invalid id in {key}')
        values.append(int(raw))
    return values


def form_enum(form, key: str, enum_cls, *, required: bool = True):
    raw = form_str(form, key).upper().replace('-', '_')
    if raw == '':
        if required:
            raise HTTPException(status_code=400, detail=f'{key} is required')
        return None
    try:
        return enum_cls(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid {key}') from exc


def query_int(request, key: str) -> int | None:
    raw = request.query_params.get(key, '').strip()
    return int(raw) if raw.isdigit() else None
