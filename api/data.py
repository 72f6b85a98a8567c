"""GET /api/data - unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.exceptions import InvalidInputError, NotFoundError
from core.models import QuoteStatus


VALID_TYPES = {"quotes", "templates", "analytics", "history"}
HISTORY_ENTITIES = {"quote", "line_item", "template"}


def parse_uuid(value: str | None, name: str = "id") -> UUID:
    """Parse a UUID parameter, rejecting it as invalid input rather than a server error."""
    if value is None:
        raise InvalidInputError(f"'{name}' is required")
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidInputError(f"'{name}' must be a UUID")


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    quote_svc = services["quote"]
    line_item_svc = services["line_item"]
    template_svc = services["template"]
    analytics_svc = services["analytics"]
    audit = services["audit"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        include: str | None = Query(None),
        filter: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise InvalidInputError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise InvalidInputError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        includes = set(include.split(",")) if include else set()
        request_id = getattr(request.state, "request_id", None)

        if type == "quotes":
            data = _handle_quotes(quote_svc, line_item_svc, id, includes, filter, limit, offset)
        elif type == "templates":
            data = _handle_templates(template_svc, id, includes)
        elif type == "analytics":
            data = analytics_svc.get_analytics().model_dump(mode="json")
        else:
            data = _handle_history(audit, id, filter)

        return success_response(data, request_id).model_dump(mode="json")

    return router


def _handle_quotes(quote_svc, line_item_svc, id, includes, filter, limit, offset):
    if id:
        quote_id = parse_uuid(id)

        if "document" in includes:
            return quote_svc.document(quote_id).model_dump(mode="json")

        quote = quote_svc.get_by_id(quote_id)
        if quote is None:
            raise NotFoundError(f"Quote {id} not found")

        data = quote.model_dump(mode="json")
        if "line_items" in includes:
            items = line_item_svc.list_for_quote(quote.id)
            data["line_items"] = [li.model_dump(mode="json") for li in items]

        return data

    status = None
    if filter:
        try:
            status = QuoteStatus(filter)
        except ValueError:
            raise InvalidInputError(
                f"Unknown status '{filter}'. Valid: {', '.join(s.value for s in QuoteStatus)}"
            )

    quotes = quote_svc.list_quotes(status=status, limit=limit, offset=offset)
    return [q.model_dump(mode="json") for q in quotes]


def _handle_templates(template_svc, id, includes):
    if id:
        template_id = parse_uuid(id)
        template = template_svc.get_by_id(template_id)
        if template is None:
            raise NotFoundError(f"Template {id} not found")

        data = template.model_dump(mode="json")
        if "items" in includes:
            items = template_svc.get_items(template.id)
            data["items"] = [i.model_dump(mode="json") for i in items]

        return data

    templates = template_svc.list_templates()
    return [t.model_dump(mode="json") for t in templates]


def _handle_history(audit, id, filter):
    if filter not in HISTORY_ENTITIES:
        raise InvalidInputError(
            f"'history' type requires 'filter' to be one of: {', '.join(sorted(HISTORY_ENTITIES))}"
        )
    entity_id = parse_uuid(id)
    entries = audit.get_entity_history(filter, entity_id)
    return [
        {**entry, "id": str(entry["id"]), "user_id": str(entry["user_id"]),
         "entity_id": str(entry["entity_id"]), "created_at": entry["created_at"].isoformat()}
        for entry in entries
    ]
