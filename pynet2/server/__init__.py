"""HTTP front-end for pyNet2 (FastAPI)."""
from pynet2.server.main import create_app

__all__ = ["create_app"]
