"""
Constants shared across ArchLens.
"""

CONFIG_FILES = [
    '.archlens.yaml',
    '.archlens.yml',
    '.archlens.toml',
    '.archlens.json',
]

DEFAULT_EXCLUDED_DIRS = [
    'node_modules',
    '.git',
    'dist',
    'build',
    '.next',
    'coverage',
    '.cache',
    '.vercel',
    '.github',
]

DEFAULT_INCLUDE_EXTENSIONS = [
    '.ts', '.tsx', '.js', '.jsx', '.json',
    '.css', '.scss', '.html', '.md', '.sql',
]

DEFAULT_EXCLUDE_EXTENSIONS = ['.map', '.min.js', '.min.css']

TEXT_EXTENSIONS = {
    '.ts', '.tsx', '.js', '.jsx', '.mjs', '.cjs', '.json',
    '.css', '.scss', '.sass', '.less', '.html', '.htm',
    '.md', '.mdx', '.txt', '.sql', '.yml', '.yaml', '.xml', '.svg',
    '.env', '.sh', '.graphql', '.gql',
}

# Extensions whose files may declare UI components
VIEW_EXTENSIONS = {'.tsx', '.jsx'}

# Extensions carrying executable code worth parsing
CODE_EXTENSIONS = {'.ts', '.tsx', '.js', '.jsx', '.mjs', '.cjs'}

TEST_PATH_PATTERNS = [
    r'\.test\.',
    r'\.spec\.',
    r'__tests__',
    r'(^|/)test/',
    r'(^|/)tests/',
    r'(^|/)spec/',
    r'\.stories\.',
    r'\.story\.',
]

CONFIG_NAME_PATTERNS = [
    r'\.config\.',
    r'^\..*rc$',
    r'^\..*rc\.(js|json|ya?ml)$',
    r'^package\.json$',
    r'^tsconfig.*\.json$',
    r'^jsconfig\.json$',
    r'^docker-compose.*\.ya?ml$',
    r'^Dockerfile',
    r'^\.env',
    r'^\.gitignore$',
    r'^\.dockerignore$',
    r'^\.editorconfig$',
    r'^vercel\.json$',
    r'^netlify\.toml$',
]

ENTRY_POINT_NAMES = {'index', 'main', 'app', 'page', 'layout', '_app', '_document'}

RESOLVE_EXTENSIONS = ['', '.ts', '.tsx', '.js', '.jsx', '.json']

DEFAULT_CONFIG = {
    'scanner': {
        'max_file_size': 1024 * 1024,
        'large_file_threshold': 100 * 1024,
        'excluded_dirs': list(DEFAULT_EXCLUDED_DIRS),
        'include_extensions': list(DEFAULT_INCLUDE_EXTENSIONS),
        'exclude_extensions': list(DEFAULT_EXCLUDE_EXTENSIONS),
        'follow_symlinks': False,
    },
    'analysis': {
        'max_workers': None,
        'db_path': '.archlens/archlens.db',
        'report_dir': '.',
        'ml_model_version': 'v1.0.0',
        'model_path': '.archlens/scorer.npz',
    },
    'policy': {},
    'logging': {
        'level': 'INFO',
        'file': None,
    },
}
