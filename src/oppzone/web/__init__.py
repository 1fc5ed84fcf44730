"""HTTP boundary: FastAPI app factory and routers."""
