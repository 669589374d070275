from __future__ import annotations


class DompetError(Exception):
	"""Base error; ``message`` is returned to the client as ``{"error": message}``."""

	status_code = 400

	def __init__(self, message: str, status_code: int | None = None) -> None:
		super().__init__(message)
		self.message = message
		if status_code is not None:
			self.status_code = status_code


class UnauthorizedError(DompetError):
	status_code = 401

	def __init__(self, message: str = "Unauthorized") -> None:
		super().__init__(message)


class NotFoundError(DompetError):
	status_code = 404


class QuotaExceededError(DompetError):
	status_code = 429


class UpstreamError(DompetError):
	status_code = 502


class ServiceUnavailableError(DompetError):
	status_code = 503
