"""
SAM API Routes Package.

FastAPI route handlers for the evidence engine.

Example:
    from sam.routes import evidence

    app.include_router(evidence.router)
"""
