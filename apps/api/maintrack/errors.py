from __future__ import annotations


class MaintrackError(RuntimeError):
  status_code = 400

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class ValidationError(MaintrackError):
  """Missing or malformed input, raised before any database call."""

  status_code = 400


class NotFoundError(MaintrackError):
  status_code = 404


class GatewayError(MaintrackError):
  """The database rejected an operation; `message` is its own error text."""

  status_code = 400
