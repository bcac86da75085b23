"""
VaultGate API Server

Exposes policy governance and transfer authorization over REST for the
frontend. Handlers only translate HTTP to VaultGateService calls and map the
error taxonomy to status codes.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from vaultgate import __version__
from vaultgate.config import settings
from vaultgate.errors import NotFoundError, ValidationError, VaultGateError
from vaultgate.service import VaultGateService


logger = logging.getLogger(__name__)


# Request Models
class ApproveRequest(BaseModel):
    approver: str = Field(min_length=1)


class CancelChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    canceler_name: str = Field(alias="cancelerName", min_length=1)


class ReorderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ordered_ids: List[int] = Field(alias="orderedIds")


class CreateTransactionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: str
    asset: str
    initiator: str
    policy_id: int = Field(alias="policyId")


class FailTransactionRequest(BaseModel):
    reason: str = Field(min_length=1)


class TransferSubmission(BaseModel):
    request: Dict[str, Any]
    amount: str


def create_app(service: Optional[VaultGateService] = None) -> FastAPI:
    """Build the API around a service instance (a fresh demo one by default)."""
    vaultgate = service or VaultGateService.from_settings(settings)

    app = FastAPI(title="VaultGate API", version=__version__)
    app.state.vaultgate = vaultgate

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error mapping
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(status_code=400, content={"message": exc.message, "field": exc.field})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {"loc": (), "msg": "Invalid request"}
        field = ".".join(str(loc) for loc in first["loc"] if loc != "body") or None
        return JSONResponse(status_code=400, content={"message": first["msg"], "field": field})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"message": exc.message})

    @app.exception_handler(VaultGateError)
    async def internal_error_handler(request: Request, exc: VaultGateError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=500, content={"message": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} crashed")
        return JSONResponse(status_code=500, content={"message": "Internal server error"})

    # Routes
    @app.get("/")
    def root():
        return {"status": "online", "system": "VaultGate"}

    @app.get("/api/policies")
    def list_policies():
        return vaultgate.list_policies()

    @app.post("/api/policies")
    def create_policy(payload: Dict[str, Any] = Body(...), creator: Optional[str] = None):
        return vaultgate.create_policy(payload, creator=creator)

    @app.post("/api/policies/reorder")
    def reorder_policies(req: ReorderRequest, actor: Optional[str] = None):
        return vaultgate.reorder_policies(req.ordered_ids, actor=actor)

    @app.post("/api/policies/restrictive-order")
    def restrictive_order(actor: Optional[str] = None):
        return vaultgate.apply_restrictive_order(actor=actor)

    @app.post("/api/policies/simulate")
    def simulate(payload: Dict[str, Any] = Body(...)):
        decision = vaultgate.simulate(payload)
        return {
            "action": decision.action.value,
            "matchedPolicy": decision.matched_policy,
            "reason": decision.reason,
        }

    @app.get("/api/policies/{policy_id}")
    def get_policy(policy_id: int):
        return vaultgate.get_policy(policy_id)

    @app.put("/api/policies/{policy_id}")
    def submit_change(
        policy_id: int,
        diff: Dict[str, Any] = Body(...),
        submitter: str = "anonymous",
    ):
        return vaultgate.submit_policy_change(policy_id, diff, submitter)

    @app.delete("/api/policies/{policy_id}")
    def delete_policy(policy_id: int, submitter: str = "anonymous"):
        policy = vaultgate.request_policy_deletion(policy_id, submitter)
        deleted = vaultgate.repository.find(policy_id) is None
        return {
            "success": True,
            "status": "deleted" if deleted else policy.status.value,
            "policy": policy,
        }

    @app.patch("/api/policies/{policy_id}/toggle")
    def toggle_policy(policy_id: int, actor: Optional[str] = None):
        return vaultgate.toggle_policy(policy_id, actor=actor)

    @app.post("/api/policies/{policy_id}/approve-change")
    def approve_change(policy_id: int, req: ApproveRequest):
        result = vaultgate.approve_policy_change_detailed(policy_id, req.approver)
        return result

    @app.post("/api/policies/{policy_id}/cancel-change")
    def cancel_change(policy_id: int, req: CancelChangeRequest):
        return vaultgate.cancel_policy_change(policy_id, req.canceler_name)

    @app.get("/api/transactions")
    def list_transactions():
        return vaultgate.list_transactions()

    @app.get("/api/transactions/pending")
    def list_pending_transactions():
        return vaultgate.list_pending_transactions()

    @app.post("/api/transactions")
    def create_transaction(req: CreateTransactionRequest):
        policy = vaultgate.get_policy(req.policy_id)
        return vaultgate.create_transaction(req.amount, req.asset, req.initiator, policy)

    @app.post("/api/transfers")
    def submit_transfer(req: TransferSubmission):
        decision, transaction = vaultgate.authorize_transfer(req.request, req.amount)
        return {
            "action": decision.action.value,
            "matchedPolicy": decision.matched_policy,
            "reason": decision.reason,
            "transaction": transaction,
        }

    @app.get("/api/transactions/{transaction_id}")
    def get_transaction(transaction_id: int):
        return vaultgate.get_transaction(transaction_id)

    @app.post("/api/transactions/{transaction_id}/approve")
    def approve_transaction(transaction_id: int, req: ApproveRequest):
        return vaultgate.approve_transaction_detailed(transaction_id, req.approver)

    @app.post("/api/transactions/{transaction_id}/fail")
    def fail_transaction(transaction_id: int, req: FailTransactionRequest):
        return vaultgate.fail_transaction(transaction_id, req.reason)

    @app.get("/api/policy-history")
    def policy_history(limit: int = 50):
        return vaultgate.policy_history(limit)

    @app.get("/api/ledger/verify")
    def verify_ledger():
        return vaultgate.ledger.validate_chain()

    @app.get("/api/directory/users")
    def directory_users():
        return vaultgate.directory.list_users() if vaultgate.directory else []

    @app.get("/api/directory/wallets")
    def directory_wallets():
        return vaultgate.directory.list_wallets() if vaultgate.directory else []

    logger.info("VaultGate API ready")
    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=settings.log_level)
    uvicorn.run(create_app(), host=settings.host, port=settings.port)
