"""
Servess - Hello World sample

This demonstrates the basic usage of the Servess dispatch core.
Run with: uvicorn sample:app --reload
"""


import logging
import time

import jwt

from servess import MessageContext, Servess
from servess.cookies import CookieOptions
from servess.exceptions import BadRequest
from servess.extensions.auth import (
    AuthOptions,
    Authentication,
    JWTAuthBackend,
    current_user,
    login_required,
    require_scopes,
)
from servess.extensions.cors import CORS, CORSOptions
from servess.extensions.logging import RequestLogging

# =============================================================================
# Application Setup
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
)
logger = logging.getLogger("servess.sample")

SECRET_KEY = "{YOUR_SECRET_HERE}"

app: Servess = Servess(debug=True)
state: dict[str, object] = {}


def configure_cors(options: CORSOptions) -> None:
    options.allow_origins = ["*"]
    options.allow_methods = ["GET", "POST", "PUT", "DELETE"]


def configure_auth(options: AuthOptions) -> None:
    options.backend = JWTAuthBackend(secret_key=SECRET_KEY)


# =============================================================================
# Lifespan Events (Database initialization example)
# =============================================================================


@app.on_startup
async def startup() -> None:
    """Install extensions and initialize resources on application startup."""
    logger.info("Servess is starting up...")
    await app.install(RequestLogging)
    await app.install(CORS, configure_cors)
    await app.install(Authentication, configure_auth)
    # Example: state["db"] = await create_database_pool()
    state["db"] = {"connected": True}  # Placeholder
    logger.info("Database connected")


@app.on_shutdown
async def shutdown() -> None:
    """Cleanup resources on application shutdown."""
    logger.info("Servess is shutting down...")
    state["db"] = None
    logger.info("Database disconnected")


# =============================================================================
# Routes - Hello World
# =============================================================================


@app.post("/login")
async def login(ctx: MessageContext) -> str:
    data: dict[str, str] = await ctx.json_body() or {}
    username: str = data.get("username", "")
    password: str = data.get("password", "")

    # In a real application, you would verify credentials against a database and hash passwords
    if username == "admin" and password == "password":
        payload: dict[str, int | str | list[str]] = {
            "sub": "1",
            "username": username,
            "scopes": ["read"],
            "iat": int(time.time()),
            "exp": int(time.time()) + 3600,
        }
        token: str = jwt.encode(payload, SECRET_KEY, algorithm="HS256")
        return ctx.json({"token": token})

    ctx.status(401)
    return ctx.json({"error": "Invalid credentials"})


@app.get("/protected")
async def protected(ctx: MessageContext) -> str:
    return ctx.json({"user": current_user(ctx).username})

protected.add_precondition(login_required)


@app.get("/")
async def hello_world(ctx: MessageContext) -> str:
    """
    Hello World endpoint.

    Answers with JSON or HTML depending on the Accept header.
    """
    greeting = {"message": "Hello, World! Welcome to Servess", "framework": "Servess"}
    return ctx.accepting({
        "json": lambda ctx: ctx.json(greeting),
        "html": lambda ctx: ctx.set_header("Content-Type", "html") and f"<h1>{greeting['message']}</h1>",
        "else": lambda ctx: greeting["message"],
    })


@app.get("/health")
async def health_check(ctx: MessageContext) -> str:
    """Health check endpoint."""
    db_status = state.get("db") or {}
    return ctx.json({
        "status": "healthy",
        "database": "connected" if db_status.get("connected") else "disconnected",  # type: ignore[union-attr]
    })


# =============================================================================
# Routes - Path Parameters
# =============================================================================


@app.get("/users/:user_id")
async def get_user(ctx: MessageContext) -> str:
    """Demonstrates path parameter extraction."""
    user_id = ctx.params["user_id"]
    return ctx.json({
        "user_id": user_id,
        "username": f"user_{user_id}",
        "email": f"user{user_id}@example.com",
    })


@app.get("/static/*")
async def static_files(ctx: MessageContext) -> str:
    """Wildcard routes match the rest of the path, slashes included."""
    return f"would serve {ctx.path}"


# =============================================================================
# Routes - Request Body & Query Parameters
# =============================================================================


@app.post("/users")
async def create_user(ctx: MessageContext) -> str:
    """Demonstrates JSON body parsing and redirect-after-POST."""
    data = await ctx.json_body()
    logger.info("Creating user %r", data)
    ctx.redirect("/users/1")
    return ctx.json({"message": "User created successfully", "user": data})


@app.get("/search")
async def search(ctx: MessageContext) -> str:
    """Demonstrates query parameter handling."""
    return ctx.json({
        "query": ctx.query.get("q", ""),
        "page": ctx.query.get_as_number_in_range("page", 1, 1000, 1),
        "limit": ctx.query.get_as_number_in_range("limit", 1, 100, 10),
        "results": [],
    })


# =============================================================================
# Routes - Cookies
# =============================================================================


@app.get("/cookie-demo")
async def cookie_demo(ctx: MessageContext) -> str:
    """Sets a cookie in the response."""
    ctx.set_cookie(
        "demo_cookie",
        "hello_servess",
        CookieOptions(
            max_age=3600,
            httponly=True,
            secure=False,  # Set to True in production with HTTPS
            samesite="lax",
        ),
    )
    return ctx.json({"message": "Cookie set!", "cookies_received": dict(ctx.cookies)})


# =============================================================================
# Routes - Error Handling
# =============================================================================


@app.get("/error")
async def trigger_error(ctx: MessageContext) -> None:
    """Demonstrates error handling."""
    raise BadRequest("This is a demonstration error")


# =============================================================================
# Sub-router Example - API v1
# =============================================================================

api_v1 = app.create_router("/api/v1")


@api_v1.get("/info")
async def api_info(ctx: MessageContext) -> str:
    """API version information."""
    return ctx.json({"api_version": "0.1.0", "framework": "Servess"})


@api_v1.get("/products")
async def list_products(ctx: MessageContext) -> str:
    """List products."""
    return ctx.json({
        "products": [
            {"id": 1, "name": "Mjolnir", "price": 999.99},
            {"id": 2, "name": "Stormbreaker", "price": 1299.99},
        ],
    })


@api_v1.delete("/products/:id")
async def delete_product(ctx: MessageContext) -> None:
    ctx.status(204)

delete_product.add_precondition(require_scopes("products:delete"))


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """Run the Servess application."""
    logger.info("""
    Servess
    ============================

    Starting development server...

    Available endpoints:
    - GET  /                 - Hello World (negotiated)
    - POST /login            - Issue a JWT
    - GET  /protected        - Requires a bearer token
    - GET  /health           - Health check
    - GET  /users/:user_id   - Get user by ID
    - POST /users            - Create user
    - GET  /search           - Search with query params
    - GET  /cookie-demo      - Cookie demonstration
    - GET  /error            - Error handling demo
    - GET  /api/v1/info      - API info (sub-router)
    - GET  /api/v1/products  - List products
    """)

    app.run(
        host="127.0.0.1",
        port=8000,
        log_level="info",
    )


if __name__ == "__main__":
    main()
