from __future__ import annotations

import unittest

from fastapi import HTTPException
from starlette.requests import Request

from farmvault.auth import Principal, Role, require_role
from farmvault.dependencies import company_path, resolve_company_id


def make_request(query: str = '') -> Request:
    return Request({'type': 'http', 'method': 'GET', 'path': '/', 'query_string': query.encode(), 'headers': []})


def make_principal(role: Role, company_id: int | None = 1) -> Principal:
    return Principal(id=9, username='user', name='User', role=role, company_id=company_id, active=True)


class DependencyTests(unittest.TestCase):
    def test_developer_selects_company_from_query(self) -> None:
        developer = make_principal(Role.DEVELOPER, company_id=None)
        self.assertEqual(resolve_company_id(make_request('company_id=4'), developer), 4)
        with self.assertRaises(HTTPException) as ctx:
            resolve_company_id(make_request(), developer)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_company_users_are_pinned_to_their_company(self) -> None:
        manager = make_principal(Role.MANAGER, company_id=1)
        self.assertEqual(resolve_company_id(make_request(), manager), 1)
        self.assertEqual(resolve_company_id(make_request('company_id=1'), manager), 1)
        with self.assertRaises(HTTPException) as ctx:
            resolve_company_id(make_request('company_id=2'), manager)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_company_path_only_tags_developer_redirects(self) -> None:
        developer = make_principal(Role.DEVELOPER, company_id=None)
        self.assertEqual(company_path('/projects', developer, 3), '/projects?company_id=3')
        self.assertEqual(company_path('/projects?project_id=2', developer, 3), '/projects?project_id=2&company_id=3')
        self.assertEqual(company_path('/projects', make_principal(Role.COMPANY_ADMIN), 1), '/projects')

    def test_require_role(self) -> None:
        check = require_role(Role.COMPANY_ADMIN)
        admin = make_principal(Role.COMPANY_ADMIN)
        self.assertIs(check(admin), admin)
        with self.assertRaises(HTTPException) as ctx:
            check(make_principal(Role.BROKER))
        self.assertEqual(ctx.exception.status_code, 403)


if __name__ == '__main__':
    unittest.main()
