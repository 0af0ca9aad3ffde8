"""
Configuration constants for the file catalog.
"""

# --- Categories ---
CATEGORIES = (
    'image', 'video', 'audio', 'document', 'code',
    'archive', 'spreadsheet', 'font', 'office', 'other',
)

# --- Extension Sets (lower-cased, no dot) ---
CODE_EXTS = {
    'js', 'jsx', 'ts', 'tsx', 'py', 'java', 'c', 'cpp', 'h', 'hpp',
    'cs', 'rb', 'go', 'rs', 'php', 'swift', 'kt', 'scala', 'sh', 'bash',
    'html', 'css', 'scss', 'sass', 'less', 'xml', 'json', 'yaml', 'yml',
    'sql', 'r', 'lua', 'pl', 'vim', 'asm',
}
ARCHIVE_EXTS = {'zip', 'tar', 'gz', 'bz2', 'xz', '7z', 'rar', 'tgz'}
SPREADSHEET_EXTS = {'xls', 'xlsx', 'csv', 'ods'}
FONT_EXTS = {'ttf', 'otf', 'woff', 'woff2', 'eot', 'ttc', 'otc'}
OFFICE_EXTS = {'docx', 'doc', 'pptx', 'ppt', 'odt', 'odp'}
DOCUMENT_EXTS = {'pdf', 'rtf', 'txt', 'md', 'epub', 'mobi'}

# Priority order for extension-based categorization
EXTENSION_CATEGORIES = (
    ('code', CODE_EXTS),
    ('archive', ARCHIVE_EXTS),
    ('spreadsheet', SPREADSHEET_EXTS),
    ('font', FONT_EXTS),
    ('office', OFFICE_EXTS),
    ('document', DOCUMENT_EXTS),
)

# --- MIME Detection ---
DEFAULT_MIME_TYPE = 'application/octet-stream'

# Entries the stdlib default tables lack or disagree on between versions
EXTRA_MIME_TYPES = {
    'md': 'text/markdown',
    'yaml': 'application/yaml',
    'yml': 'application/yaml',
    'gz': 'application/gzip',
    'tgz': 'application/gzip',
    'bz2': 'application/x-bzip2',
    'xz': 'application/x-xz',
    '7z': 'application/x-7z-compressed',
    'rar': 'application/vnd.rar',
    'ttf': 'font/ttf',
    'otf': 'font/otf',
    'woff': 'font/woff',
    'woff2': 'font/woff2',
    'flac': 'audio/flac',
    'mkv': 'video/x-matroska',
    'webp': 'image/webp',
    'heic': 'image/heic',
    'epub': 'application/epub+zip',
    'mobi': 'application/x-mobipocket-ebook',
}

# Bytes read from the start of a file for content sniffing
SNIFF_BYTES = 4096

# Sniffer answers that do not positively identify a format
INCONCLUSIVE_MIME_TYPES = {
    'application/octet-stream',
    'text/plain',
    'inode/x-empty',
    'application/x-empty',
}

# --- Hashing ---
HASH_ALGORITHMS = ('md5', 'sha256')
DUPLICATE_HASH_ALGORITHM = 'sha256'
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading

# --- Scanning ---
DEFAULT_MAX_WORKERS = 3  # HDD-friendly default
DEFAULT_IGNORE_PATTERNS = (
    '.git/',
    '.DS_Store',
    'node_modules/',
    '.file-catalog/',
)

# --- Persisted State ---
STATE_DIRNAME = '.file-catalog'
DB_FILENAME = 'catalog.db'
SNAPSHOT_FILENAME = 'catalog.json'
LOG_FILENAME = 'catalog.log'
SNAPSHOT_VERSION = '1.0.0'
