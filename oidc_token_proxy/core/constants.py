TOKEN_PATH = "/token"
INTROSPECTION_PATH = "/introspection"

# Headers describing the inbound hop only. The backend URL supplies the host and
# the buffered body is re-framed by the outbound client.
NON_FORWARDED_HEADERS = frozenset({b"host", b"transfer-encoding"})

JSON_CONTENT_TYPE = "application/json"
