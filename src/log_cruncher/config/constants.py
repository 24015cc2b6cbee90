"""
Constants for the access-log store, filter deny-lists and report names.
"""

# =============================================================================
# SQLite table names
# =============================================================================

TABLE_CLIENT_IPS = "client_ips"
TABLE_PATHS = "paths"
TABLE_REFERERS = "referers"
TABLE_USER_AGENTS = "user_agents"
TABLE_AUTONOMOUS_SYSTEMS = "autonomous_systems"
TABLE_ASN_NAMES = "asn_names"
TABLE_REQUESTS = "requests"

# =============================================================================
# Dictionary names
# =============================================================================

DICT_CLIENT_IP = "client_ip"
DICT_PATH = "path"
DICT_REFERER = "referer"
DICT_USER_AGENT = "user_agent"
DICT_ASN = "asn"

# =============================================================================
# Filter deny-lists
# =============================================================================
#
# These are hand-tuned heuristics. They are defaults only; every list can be
# replaced from the config file (see FilterSettings).

# Synthetic / monitoring clients, matched as case-insensitive substrings
PROBE_USER_AGENTS = [
    "blackbox",  # Prometheus blackbox exporter health checks
    "uptimerobot",
    "w3c_validator",
    "w3c-checklink",
]

# Responses treated as noise rather than reportable errors
JUNK_STATUSES = [404]

# Spoofed browser signatures used by spam crawlers (regular expressions)
SPOOFED_USER_AGENT_PATTERNS = [
    r"Mozlila/",
    r"Mozila/",
]

# Long-form content lives under /writing/<slug>/
ARTICLE_PATH_PATTERN = r"/writing/.*/$"

# Feeds under the article prefix are not articles
FEED_PATH_SUFFIXES = [".xml"]

# Vulnerability-scanner probe paths
PROBE_PATH_PREFIXES = ["/wp"]
PROBE_PATH_SUFFIXES = [".php"]

# =============================================================================
# Reports
# =============================================================================

REPORT_TRAFFIC_COUNT = "traffic-count"
REPORT_AGENTS = "agents"
REPORT_REFERERS = "referers"
REPORT_PAGES = "pages"
REPORT_ARTICLES = "articles"
REPORT_ARTICLES_PER_DAY = "articles-per-day-top3"
REPORT_ERRORS = "errors"
REPORT_SCANNING_ASNS = "scanning-asns"

REPORT_NAMES = [
    REPORT_TRAFFIC_COUNT,
    REPORT_AGENTS,
    REPORT_REFERERS,
    REPORT_PAGES,
    REPORT_ARTICLES,
    REPORT_ARTICLES_PER_DAY,
    REPORT_ERRORS,
    REPORT_SCANNING_ASNS,
]

DEFAULT_WINDOW_DAYS = 7
DEFAULT_TOP_N = 20
DEFAULT_PER_DAY_K = 3
DEFAULT_DISPLAY_WIDTH = 70

# =============================================================================
# Filter pipeline stage names
# =============================================================================

VIEW_RESOLVED = "resolved"
VIEW_WITHOUT_PROBES = "without_probes"
VIEW_WITHOUT_JUNK = "without_junk"
VIEW_RECENT = "recent"
VIEW_ARTICLES = "articles"

VIEW_NAMES = [
    VIEW_RESOLVED,
    VIEW_WITHOUT_PROBES,
    VIEW_WITHOUT_JUNK,
    VIEW_RECENT,
    VIEW_ARTICLES,
]

# =============================================================================
# ASN enrichment
# =============================================================================

PEERINGDB_AS_SET_URL = "https://www.peeringdb.com/api/as_set/{asn}"
SPAMHAUS_ASN_DROP_URL = "https://www.spamhaus.org/drop/asndrop.json"
DROPLIST_SPAMHAUS = "spamhaus"
