"""
Pytest suite for the DigiNum payments backend.

Test categories:
- Unit tests: adapters, validators, amounts and helpers with the vendor HTTP layer stubbed
- Integration tests: order settlement and the rate cache against in-memory SQLite
- API tests: the full FastAPI app through an ASGI client
"""
