"""Application error taxonomy.

Routers and services raise these; ``main`` renders them as ``{"detail": ...}``
with the status code carried by the exception class.
"""
from __future__ import annotations


class AppError(Exception):
	status_code = 500

	def __init__(self, detail: str = "") -> None:
		super().__init__(detail)
		self.detail = detail or self.__class__.__name__


class NotFound(AppError):
	status_code = 404


class Forbidden(AppError):
	status_code = 403


class ValidationError(AppError):
	status_code = 400


class UpstreamError(AppError):
	"""Object storage (or another remote dependency) failed."""
	status_code = 502
