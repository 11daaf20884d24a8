"""
Domain packages

Each domain keeps the same layout:
- schemas.py     Pydantic request/response models
- repository.py  Database queries
- service.py     Business rules
- router.py      FastAPI endpoints
"""
