"""Format-level building blocks shared by the reader.

	typed_value – descriptor byte + payload codec, sentinel policy
	errors      – error hierarchy carrying byte offsets / record indices
"""

from .errors import (  # noqa: F401
	BCFError,
	BadMagic,
	UnsupportedVersion,
	InvalidHeader,
	DuplicateDefinition,
	MalformedEncoding,
	UnknownDictionaryId,
	TruncatedRecord,
	IoFailure,
)
from .typed_value import (  # noqa: F401
	BCFType,
	ValueKind,
	TypedValue,
	decode_typed,
	decode_typed_int,
	decode_typed_string,
	encode_typed,
	encode_descriptor,
)

__all__ = [
	"BCFError",
	"BadMagic",
	"UnsupportedVersion",
	"InvalidHeader",
	"DuplicateDefinition",
	"MalformedEncoding",
	"UnknownDictionaryId",
	"TruncatedRecord",
	"IoFailure",
	"BCFType",
	"ValueKind",
	"TypedValue",
	"decode_typed",
	"decode_typed_int",
	"decode_typed_string",
	"encode_typed",
	"encode_descriptor",
]
