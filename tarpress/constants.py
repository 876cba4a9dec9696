# Container block layout (v7 tape-archive header)
BLOCK_SIZE = 512
END_OF_ARCHIVE_BLOCKS = 2

NAME_OFFSET, NAME_LEN = 0, 100
MODE_OFFSET = 100
UID_OFFSET = 108
GID_OFFSET = 116
SIZE_OFFSET, SIZE_LEN = 124, 12
MTIME_OFFSET, MTIME_LEN = 136, 12
CHKSUM_OFFSET, CHKSUM_LEN = 148, 8
TYPEFLAG_OFFSET = 156

FILE_MODE_FIELD = b"0000644 "
OWNER_ID_FIELD = b"0000000 "
GROUP_ID_FIELD = b"0000000 "
REGTYPE = b"0"

OCTAL_DIGITS = 11
MAX_OCTAL_SIZE = 8 ** OCTAL_DIGITS - 1  # 8 GiB - 1
CHKSUM_DIGITS = 6

MANIFEST_SUFFIX = ".duplicates.json"

# Deduplication reporting
MAX_DUPLICATE_SUMMARIES = 5

# Algorithm tags (see settings.Algorithm)
TAG_GZIP = "tar.gz"
TAG_BZIP2 = "tar.bz2"
TAG_BROTLI = "tar.br"
TAG_LZMA = "tar.lzma"

MIME_TYPES = {
    TAG_GZIP: "application/gzip",
    TAG_BZIP2: "application/x-bzip2",
    TAG_BROTLI: "application/x-brotli",
    TAG_LZMA: "application/x-lzma",
}

DEFAULT_LEVEL = 6
MIN_LEVEL = 1
MAX_LEVEL = 9

# Long member name policies
LONG_NAMES_TRUNCATE = "truncate"
LONG_NAMES_REJECT = "reject"

# Progress checkpoints (percent)
PCT_START = 0.0
PCT_SOURCE_HASHED = 5.0
PCT_SOURCE_OPENED = 10.0
PCT_EXTRACTED = 30.0
PCT_DEDUP_START = 35.0
PCT_DEDUP_DONE = 45.0
PCT_FRAME_START = 50.0
PCT_FRAMED = 70.0
PCT_COMPRESSED = 90.0
PCT_VERIFIED = 95.0
PCT_DONE = 100.0
