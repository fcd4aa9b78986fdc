import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from .config import Settings, configure_logging
from .database import Database, get_db
from .errors import AppError, AuthError, ForbiddenError, InternalError, ValidationError
from .services import accounts, identity
from .services.plaid import PlaidGateway
from .services.security import TokenIssuer
from .services.summary import summarize_by_category
from .services.sync import fetch_transactions
from .utils.crypto import TokenCipher

logger = logging.getLogger(__name__)


def create_app(settings: Settings = None, gateway: PlaidGateway = None, cipher: TokenCipher = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting application startup...")
        db = Database(settings.database_url)
        try:
            await db.init()
        except Exception:
            logger.exception("Database initialization failed")
            raise
        app.state.db = db

        owns_gateway = gateway is None
        if owns_gateway:
            if not settings.plaid_client_id or not settings.plaid_secret:
                logger.warning("PLAID_CLIENT_ID / PLAID_SECRET not set; Plaid calls will fail")
            app.state.gateway = PlaidGateway(
                client_id=settings.plaid_client_id,
                secret=settings.plaid_secret,
                env=settings.plaid_env,
                client_name=settings.plaid_client_name,
                country_codes=settings.plaid_country_codes,
            )
        else:
            app.state.gateway = gateway

        app.state.cipher = cipher
        if cipher is None:
            try:
                app.state.cipher = TokenCipher(settings.fernet_key)
            except ValueError as e:
                logger.warning("%s; account linking is disabled", e)

        logger.info("Startup complete.")
        yield

        if owns_gateway:
            await app.state.gateway.aclose()
        await db.dispose()
        logger.info("Shutdown complete.")

    app = FastAPI(title="Spending Dashboard API", lifespan=lifespan)
    app.state.settings = settings
    app.state.issuer = TokenIssuer(settings.jwt_secret, settings.jwt_expires_hours)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    register_routes(app)
    return app


# --- Dependencies ---

def get_gateway(request: Request) -> PlaidGateway:
    return request.app.state.gateway


def get_cipher(request: Request) -> TokenCipher:
    cipher = request.app.state.cipher
    if cipher is None:
        raise InternalError("FERNET_KEY is not configured")
    return cipher


def get_issuer(request: Request) -> TokenIssuer:
    return request.app.state.issuer


def current_user(request: Request) -> dict:
    """
    Claims of the bearer token. Missing token -> 401, bad token -> 403.
    """
    header = request.headers.get("Authorization", "")
    parts = header.split(" ", 1)
    token = parts[1].strip() if len(parts) == 2 and parts[0].lower() == "bearer" else None
    if not token:
        raise AuthError("No token provided")
    return request.app.state.issuer.verify(token)


def resolve_user_id(requested, claims: dict) -> int:
    """
    The user a request acts on. Defaults to the token's user; asking for
    anyone else is forbidden.
    """
    token_user = int(claims["userId"])
    if requested is None or requested == "":
        return token_user
    try:
        requested = int(requested)
    except (TypeError, ValueError):
        raise ValidationError("userId must be an integer")
    if requested != token_user:
        raise ForbiddenError("Token does not grant access to this user")
    return requested


async def json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


# --- Routes ---

def register_routes(app: FastAPI):

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/register", status_code=201)
    async def register(
        body: dict = Depends(json_body),
        db: AsyncSession = Depends(get_db),
        issuer: TokenIssuer = Depends(get_issuer),
    ):
        user, token = await identity.register(db, issuer, body.get("email"), body.get("password"))
        return {"message": "User registered successfully", "user": user.to_dict(), "token": token}

    @app.post("/login")
    async def login(
        body: dict = Depends(json_body),
        db: AsyncSession = Depends(get_db),
        issuer: TokenIssuer = Depends(get_issuer),
    ):
        user, token = await identity.login(db, issuer, body.get("email"), body.get("password"))
        return {"message": "Login successful", "user": user.to_dict(), "token": token}

    @app.get("/create-link-token")
    async def create_link_token(
        claims: dict = Depends(current_user),
        gateway: PlaidGateway = Depends(get_gateway),
    ):
        link_token = await gateway.create_link_token(claims["userId"])
        return {"link_token": link_token}

    @app.post("/exchange-save-token")
    async def exchange_save_token(
        body: dict = Depends(json_body),
        claims: dict = Depends(current_user),
        db: AsyncSession = Depends(get_db),
        gateway: PlaidGateway = Depends(get_gateway),
        cipher: TokenCipher = Depends(get_cipher),
    ):
        user_id = resolve_user_id(body.get("userId"), claims)
        await accounts.link_account(db, gateway, cipher, user_id, body.get("public_token"))
        return {"message": "Access token saved successfully"}

    @app.get("/retrieve-plaid-user")
    async def retrieve_plaid_user(
        userId: str = None,
        claims: dict = Depends(current_user),
        db: AsyncSession = Depends(get_db),
    ):
        user_id = resolve_user_id(userId, claims)
        return [account.to_dict() for account in await accounts.list_accounts(db, user_id)]

    async def _sync(request: Request, userId, startDate, endDate, claims, db):
        settings = request.app.state.settings
        return await fetch_transactions(
            db,
            get_gateway(request),
            get_cipher(request),
            resolve_user_id(userId, claims),
            startDate,
            endDate,
            lookback_days=settings.default_lookback_days,
            fetch_mode=settings.sync_fetch_mode,
        )

    @app.get("/fetch-transactions")
    async def fetch_transactions_route(
        request: Request,
        userId: str = None,
        startDate: str = None,
        endDate: str = None,
        claims: dict = Depends(current_user),
        db: AsyncSession = Depends(get_db),
    ):
        result = await _sync(request, userId, startDate, endDate, claims, db)
        return {
            "message": "Transactions fetched successfully",
            "count": result.count,
            "transactions": result.transactions,
            "dateRange": {"start": result.start.isoformat(), "end": result.end.isoformat()},
        }

    @app.get("/transactions/summary")
    async def transactions_summary(
        request: Request,
        userId: str = None,
        startDate: str = None,
        endDate: str = None,
        claims: dict = Depends(current_user),
        db: AsyncSession = Depends(get_db),
    ):
        result = await _sync(request, userId, startDate, endDate, claims, db)
        summary = summarize_by_category(result.transactions)
        summary["dateRange"] = {"start": result.start.isoformat(), "end": result.end.isoformat()}
        return summary


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("dashboard_app.main:app", host="0.0.0.0", port=3002)
