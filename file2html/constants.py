import string


# ZIP record signatures
LOCAL_FILE_HEADER_SIG = 0x04034B50
CENTRAL_DIR_HEADER_SIG = 0x02014B50
END_OF_CENTRAL_DIR_SIG = 0x06054B50
ZIP64_END_OF_CENTRAL_DIR_SIG = 0x06064B50
ZIP64_END_LOCATOR_SIG = 0x07064B50

# General purpose flags
GPF_ENCRYPTED = 1 << 0
GPF_UTF8 = 1 << 11

# Compression methods (APPNOTE 4.4.5)
METHOD_STORED = 0
METHOD_DEFLATED = 8
METHOD_AES = 99

# "Version needed to extract"
VERSION_STORED = 10
VERSION_DEFLATED = 20
VERSION_ZIP64 = 45
VERSION_AES = 51
# Made by: UNIX (3) << 8 | spec 6.3
VERSION_MADE_BY = (3 << 8) | 63

ZIP32_LIMIT = 0xFFFFFFFF
ZIP16_LIMIT = 0xFFFF

# WinZip AES extra field (https://www.winzip.com/en/support/aes-encryption/)
AES_EXTRA_ID = 0x9901
AES_VENDOR_ID = b"AE"
AES_VENDOR_AE1 = 0x0001
AES_VENDOR_AE2 = 0x0002
AES_PBKDF2_ITERATIONS = 1000
AES_VERIFIER_SIZE = 2
AES_AUTH_CODE_SIZE = 10

# strength code -> (key bytes, salt bytes)
AES_STRENGTHS = {
    1: (16, 8),
    2: (24, 12),
    3: (32, 16),
}

ENCRYPTION_METHODS = {
    "aes128": 1,
    "aes192": 2,
    "aes256": 3,
}
ENCRYPTION_NONE = "none"

COMPRESSION_STORED = "stored"
COMPRESSION_DEFLATED = "deflated"
DEFLATE_LEVEL = 6

# Password policy
RANDOM_PASSWORD_LENGTH = 16
RANDOM_PASSWORD_ALPHABET = string.ascii_letters + string.digits
TIMESTAMP_PASSWORD_FORMAT = "%Y%m%d%H%M%S"

# Payload
DEFAULT_SIZE_WARNING_BYTES = 1_048_576  # Base64 characters
KEY_FILE_SUFFIX = ".html.key"
HTML_SUFFIX = ".html"
