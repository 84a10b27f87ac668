import logging

from fastapi import APIRouter, Depends

from tierguard.api.guards import AccessContext, RouteGuard, feature_guard
from tierguard.api.route_catalog import FEATURE_PAGES, FEATURES, ROUTES

router = APIRouter()
logger = logging.getLogger(__name__)

GUARDS = {name: RouteGuard(requirement, name=name) for name, requirement in ROUTES.items()}


def _describe(context: AccessContext) -> dict:
    identity = context.identity
    return {
        'user_id': identity.user_id,
        'org_role': identity.org_role.value if identity.org_role else None,
        'organization_id': identity.organization_id,
        'is_super_admin': identity.is_super_admin,
    }


def _page_endpoint(name: str):
    async def endpoint(context: AccessContext = Depends(GUARDS[name])):
        logger.info(f"page: Granted - {name}, user: {context.identity.user_id}")
        return {'page': name, 'state': "granted", **_describe(context)}
    endpoint.__name__ = f"page_{name.replace('-', '_')}"
    return endpoint


def _feature_endpoint(page: str, feature: str):
    guard = feature_guard(FEATURES[feature], within=GUARDS[page], name=feature)

    async def endpoint(context: AccessContext = Depends(guard)):
        logger.info(f"feature: Granted - {feature}, user: {context.identity.user_id}")
        return {'page': page, 'feature': feature, 'state': "granted", **_describe(context)}
    endpoint.__name__ = f"feature_{feature.replace('-', '_')}"
    return endpoint


for _name in ROUTES:
    router.add_api_route(f"/{_name}", _page_endpoint(_name), methods=["GET"])

for _feature, _page in FEATURE_PAGES.items():
    router.add_api_route(f"/{_page}/features/{_feature}", _feature_endpoint(_page, _feature), methods=["GET"])
