from .schemas import GenerateRequest, GenerateResponse, ParseRequest, ParseResponse

__all__ = ["GenerateRequest", "GenerateResponse", "ParseRequest", "ParseResponse"]
