"""POST /api/actions - unified mutation endpoint."""

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from api.data import parse_uuid
from core.exceptions import InvalidInputError, NotFoundError
from core.models import (
    QuoteCreate, QuoteUpdate,
    LineItemCreate, LineItemUpdate,
    TemplateCreate, TemplateUpdate,
)


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "quote": QuoteHandler(services["quote"]),
        "line_item": LineItemHandler(services["line_item"]),
        "template": TemplateHandler(services["template"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise InvalidInputError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise InvalidInputError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data))
        request_id = getattr(request.state, "request_id", None)
        return success_response(result, request_id).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class QuoteHandler:
    ALLOWED_ACTIONS = {"create", "update", "send", "delete", "duplicate"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        quote = self.service.create(QuoteCreate(**data))
        return quote.model_dump(mode="json")

    def _handle_update(self, data: dict):
        quote_id = parse_uuid(data.pop("id", None))
        quote = self.service.update(quote_id, QuoteUpdate(**data))
        return quote.model_dump(mode="json")

    def _handle_send(self, data: dict):
        quote = self.service.send(parse_uuid(data.get("id")))
        return quote.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        quote_id = parse_uuid(data.get("id"))
        deleted = self.service.delete(quote_id)
        if not deleted:
            raise NotFoundError(f"Quote {quote_id} not found")
        return {"deleted": True}

    def _handle_duplicate(self, data: dict):
        quote = self.service.duplicate(parse_uuid(data.get("id")))
        return quote.model_dump(mode="json")


class LineItemHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        quote_id = parse_uuid(data.pop("quote_id", None), "quote_id")
        line_item = self.service.create(quote_id, LineItemCreate(**data))
        return line_item.model_dump(mode="json")

    def _handle_update(self, data: dict):
        quote_id = parse_uuid(data.pop("quote_id", None), "quote_id")
        line_item_id = parse_uuid(data.pop("id", None))
        line_item = self.service.update(quote_id, line_item_id, LineItemUpdate(**data))
        return line_item.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        quote_id = parse_uuid(data.get("quote_id"), "quote_id")
        line_item_id = parse_uuid(data.get("id"))
        deleted = self.service.delete(quote_id, line_item_id)
        if not deleted:
            raise NotFoundError(f"Line item {line_item_id} not found")
        return {"deleted": True}


class TemplateHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete", "replace_items", "save_from_quote", "create_quote"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        template = self.service.create(TemplateCreate(**data))
        return template.model_dump(mode="json")

    def _handle_update(self, data: dict):
        template_id = parse_uuid(data.pop("id", None))
        template = self.service.update(template_id, TemplateUpdate(**data))
        return template.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        template_id = parse_uuid(data.get("id"))
        deleted = self.service.delete(template_id)
        if not deleted:
            raise NotFoundError(f"Template {template_id} not found")
        return {"deleted": True}

    def _handle_replace_items(self, data: dict):
        template_id = parse_uuid(data.get("id"))
        raw_items = data.get("items")
        if not isinstance(raw_items, list):
            raise InvalidInputError("'items' must be a list")
        items = [LineItemCreate.model_validate(item) for item in raw_items]
        inserted = self.service.replace_items(template_id, items)
        return [i.model_dump(mode="json") for i in inserted]

    def _handle_save_from_quote(self, data: dict):
        quote_id = parse_uuid(data.pop("quote_id", None), "quote_id")
        template = self.service.save_as_template(quote_id, TemplateCreate(**data))
        return template.model_dump(mode="json")

    def _handle_create_quote(self, data: dict):
        quote = self.service.create_quote_from_template(parse_uuid(data.get("id")))
        return quote.model_dump(mode="json")
