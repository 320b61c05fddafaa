# Entry kinds
KIND_REGULAR = 'regular'
KIND_DIRECTORY = 'directory'
KIND_SYMLINK = 'symlink'
KIND_HARDLINK = 'hardlink'
KIND_CHAR_DEVICE = 'char-device'
KIND_BLOCK_DEVICE = 'block-device'
KIND_FIFO = 'fifo'
KIND_GLOBAL_HEADER = 'global-header'
KIND_UNSUPPORTED = 'unsupported'

# Kinds which are materialized as a regular file on extraction
FILE_LIKE_KINDS = {KIND_REGULAR, KIND_CHAR_DEVICE, KIND_BLOCK_DEVICE,
                   KIND_FIFO}
LINK_KINDS = {KIND_SYMLINK, KIND_HARDLINK}

# Compression type constants
COMPRESSION_GZIP = 'gzip'
COMPRESSION_NONE = 'none'
COMPRESSION_UNKNOWN = 'unknown'

# zlib's own default, which is level 6
DEFAULT_COMPRESSION_LEVEL = -1

# Destination naming conventions
TAR_EXTENSIONS = ('.tar',)
TARGZ_EXTENSIONS = ('.tar.gz', '.tgz')

BLOCK_SIZE = 512
COPY_BUFSIZE = 102400

# Permission bits applied on extraction. setuid, setgid and sticky bits from
# an archive are never applied.
PERMISSION_MASK = 0o777
DEFAULT_DIR_MODE = 0o755
DEFAULT_FILE_MODE = 0o644

# Environment variable prefix for CLI options
ENV_PREFIX = 'TARSTRAP'
