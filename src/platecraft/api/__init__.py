"""Platecraft: FastAPI REST API layer.

This package contains the FastAPI application, Pydantic request/response
models, bearer-token authentication and the request orchestrator.

Modules
-------
main
    Application factory with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
auth
    JWT verification and the ``get_current_user`` dependency.
service
    :class:`ImageService`, the generate/list/get/delete orchestrator.
"""
