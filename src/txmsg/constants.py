from __future__ import annotations

TX_PREFIX = b"TM"
HEADER_SIZE = len(TX_PREFIX) + 2  # prefix, total chunks digit, sequence digit
MAX_DATA_SIZE = 76  # null-data output limit
MAX_CHUNK_SIZE = MAX_DATA_SIZE - HEADER_SIZE
MAX_CHUNKS = 0xF

NULLDATA = "nulldata"
PUBKEYHASH = "pubkeyhash"

DUST_AMOUNT = 546
DEFAULT_FEE = 3000
MAX_SEND_RETRY = 3
RETRY_DELAY_MS = 1000
CHUNK_DELAY_MS = 500
