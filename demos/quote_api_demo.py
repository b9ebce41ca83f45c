"""
FastAPI application exposing the quote workflow, stock checks and the
superadmin password reset.

The caller is identified by the ``X-User-Id`` header, standing in for the
identity provider's token verification.
Run with: uvicorn demos.quote_api_demo:app --reload
"""

import logging

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from config.config import AppConfig
from models.enums import Role
from models.errors import (
    ConcurrentModification,
    InsufficientStock,
    InsufficientStockBatch,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    PartialCommitFailure,
    PermissionDenied,
    QuoteManagerError,
    ReconciliationRequired,
)
from models.quote import Quote, money
from services.access import CallerSession, require_role
from services.app_context import AppContext

logger = logging.getLogger("quote-api")

STATUS_CODES = {
    NotFound: 404,
    PermissionDenied: 403,
    InvalidArgument: 400,
    InvalidTransition: 409,
    InsufficientStock: 409,
    InsufficientStockBatch: 409,
    PartialCommitFailure: 409,
    ConcurrentModification: 409,
    ReconciliationRequired: 409,
}


class StatusChange(BaseModel):
    status: str


class PasswordReset(BaseModel):
    new_password: str


def quote_payload(quote: Quote) -> dict:
    return {
        "id": quote.id,
        "code": quote.code,
        "status": quote.status.value,
        "total": str(money(quote.compute_total())),
        "stock_deducted": quote.stock_deducted,
    }


def create_app(context: AppContext | None = None) -> FastAPI:
    context = context or AppContext.build(AppConfig.from_env())
    app = FastAPI(title="CCTV Quote Manager")
    app.state.context = context

    @app.exception_handler(QuoteManagerError)
    async def handle_business_error(request: Request, exc: QuoteManagerError):
        status_code = STATUS_CODES.get(type(exc), 400)
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    async def get_session(x_user_id: str | None = Header(default=None)) -> CallerSession:
        if not x_user_id:
            return CallerSession()
        try:
            profile = await context.users.find(x_user_id)
        except InvalidArgument:
            logger.error(f"Caller {x_user_id} has an unrecognised role")
            raise PermissionDenied() from None
        return CallerSession(uid=x_user_id, profile=profile)

    def authenticated(session: CallerSession = Depends(get_session)) -> CallerSession:
        if not session.is_authenticated or session.profile is None:
            raise PermissionDenied("Caller must be authenticated")
        return session

    @app.get("/products/{product_id}/availability")
    async def availability(product_id: str, qty: int, session: CallerSession = Depends(authenticated)):
        result = await context.ledger.check_availability(product_id, qty)
        return result.model_dump()

    @app.post("/quotes/{quote_id}/status")
    async def change_status(
        quote_id: str, body: StatusChange, session: CallerSession = Depends(authenticated)
    ):
        quote = await context.workflow.change_status(quote_id, body.status)
        return quote_payload(quote)

    @app.get("/quotes/{quote_id}/pdf")
    async def export_pdf(quote_id: str, session: CallerSession = Depends(authenticated)):
        quote = await context.quotes.get(quote_id)
        document = context.exporter.build(quote, await context.products.list())
        return Response(
            content=context.renderer.render(document),
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
        )

    @app.get("/quotes/reconciliation")
    async def reconciliation(session: CallerSession = Depends(authenticated)):
        require_role(session.role, Role.ADMIN)
        return [quote_payload(q) | {"reconciliation": q.reconciliation}
                for q in await context.quotes.list_needing_reconciliation()]

    @app.post("/users/{user_id}/password")
    async def reset_password(user_id: str, body: PasswordReset, session: CallerSession = Depends(get_session)):
        await context.accounts.reset_password(session.uid, user_id, body.new_password)
        return {"success": True, "message": "Password updated"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
