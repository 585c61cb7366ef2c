from .assembler import assemble_headers, assemble_response
from .route import router

__all__ = ["assemble_headers", "assemble_response", "router"]
