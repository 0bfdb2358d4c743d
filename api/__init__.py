"""
API — Capa HTTP (FastAPI) del console de soporte.
"""
