"""Image Gallery - FastAPI HTTP layer.

This package contains the FastAPI application, Pydantic request/response
models, and the HTML page rendering.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
rendering
    Jinja2 rendering of gallery, not-found and explore pages.
"""
