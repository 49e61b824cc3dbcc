import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from domain.exceptions.pricing import (
	ConfigurationError,
	NoResultsError,
	ParseError,
	PricrError,
	RemoteApiError,
	TransportError,
)

logger = logging.getLogger(__name__)


def _error_body(exc: PricrError, error: str) -> dict:
	return {'detail': str(exc), 'error': error}


def register_exception_handlers(app: FastAPI) -> None:
	@app.exception_handler(ConfigurationError)
	async def configuration_error_handler(request: Request, exc: ConfigurationError):
		return JSONResponse(status_code=400, content=_error_body(exc, exc.kind.value))

	@app.exception_handler(NoResultsError)
	async def no_results_handler(request: Request, exc: NoResultsError):
		return JSONResponse(status_code=404, content=_error_body(exc, 'no_results'))

	@app.exception_handler(TransportError)
	async def transport_error_handler(request: Request, exc: TransportError):
		logger.error(f'Provider transport error: {exc}')
		return JSONResponse(status_code=503, content=_error_body(exc, 'transport'))

	@app.exception_handler(RemoteApiError)
	async def remote_api_error_handler(request: Request, exc: RemoteApiError):
		logger.error(f'Provider API error: {exc}')
		return JSONResponse(status_code=502, content=_error_body(exc, 'remote_api'))

	@app.exception_handler(ParseError)
	async def parse_error_handler(request: Request, exc: ParseError):
		logger.error(f'Provider response parse error: {exc}')
		return JSONResponse(status_code=502, content=_error_body(exc, 'parse'))
