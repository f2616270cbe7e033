"""Errors raised by the payment and settlement helpers."""


class PaymentError(Exception):
	status_code = 400


class UnknownWriterCoinError(PaymentError):
	status_code = 400


class TransactionNotFoundError(PaymentError):
	status_code = 404


class TransactionRejectedError(PaymentError):
	"""The transaction failed on-chain or targeted the wrong contract."""

	status_code = 400


class RpcError(PaymentError):
	status_code = 502
