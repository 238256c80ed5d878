"""Static signature sets tuned to known abuse patterns on game-server hosting.

Matching is always case-insensitive substring matching unless noted.
"""

import re

# Command lines of processes that are never legitimate in a game server
SUSPICIOUS_PROCESSES = ("xmrig", "earnfm", "mcstorm.jar", "proot", "destine", "hashvault")

# Log indicator categories; a hit records the category name as a detection type
LOG_INDICATORS = {
    "whatsapp": ("whatsapp-web.js", "whatsapp-web-js", "webwhatsapi", "yowsup", "wa-automate", "baileys"),
    "nezha": ("nezha", "App is running!"),
    "miner": (
        "xmrig", "ethminer", "cpuminer", "bfgminer", "cgminer", "minerd",
        "cryptonight", "stratum+tcp", "minexmr", "nanopool", "minergate",
    ),
}

# Messaging-automation libraries looked for in package.json dependencies
MESSAGING_BOT_LIBRARIES = LOG_INDICATORS["whatsapp"]

SUSPICIOUS_LOG_WORDS = (
    "new job from",
    "noVNC",
    "Downloading fresh proxies...",
    "FAILED TO APPLY MSR MOD",
    "Tor server's identity key",
    "Stratum - Connected",
    "eth.2miners.com:2020",
    "whatsapp",
    "wa-automate",
    "whatsapp-web.js",
    "baileys",
    "port 3000",
)

# Normal server startup output; logs containing any of these are kept out of alert bodies
LEGITIMATE_LOG_PHRASES = (
    "Done (",
    "Starting minecraft server version",
    "Preparing spawn area",
    "Loading libraries",
    'For help, type "help"',
    "Loaded ",
    "Preparing start region",
    "Time elapsed",
    "Startup script",
)

SUSPICIOUS_CONTENT = (
    "stratum",
    "cryptonight",
    "proxies...",
    "const _0x1a1f74=",
    "app['listen']",
    "minexmr.com",
    "herominers",
    "hashvault",
    "xmrig",
    "nanopool.org",
    "ethpool.org",
    "2miners.com",
)

IPV4_WITH_PORT = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b:\d+")

# Ports typical of SOCKS/HTTP proxies and Tor relays
PROXY_PORTS = (1080, 3128, 8080, 8118, 9150, 9001, 9030)

# Volume walk
SUSPICIOUS_FILENAMES = (
    "mine.sh", "working_proxies.txt", "proxies.txt", "whatsapp.js", "wa_bot.js", "proxy.txt",
)
SUSPICIOUS_EXTENSIONS = (".sh",)
SUSPICIOUS_CACHE_PREFIXES = ("cpuminer", "cpuminer-avx2", "xmrig")
PACKAGE_MANIFEST = "package.json"

IGNORED_EXTENSIONS = (
    ".jar", ".phar", ".rar", ".zip", ".tar.gz", ".7z", ".gz", ".xz", ".bz2",
    ".log", ".logs", ".txt", ".yml", ".yaml", ".json", ".properties", ".db", ".toml", ".mca",
)

IGNORED_FILES = (
    "velocity.toml",
    "server.jar.old",
    "latest.log",
    "debug.log",
    "error.log",
    "access.log",
    "server.log",
    "usermap.bin",
    "forbidden-players.txt",
    "help.yml",
    "commands.yml",
    "permissions.yml",
    "node_modules",
)

IGNORED_PATHS = (
    "proxy.log.0",
    "proxy.log",
    "plugins/.paper-remapped",
    "plugins/CoreProtect/database.db",
    "plugins/PlaceholderAPI/javascripts/example.js",
    "plugins/Geyser-Spigot/locales",
    "plugins/Geyser-Velocity/locales",
    "plugins/Essentials",
    "plugins/ViaVersion/cache",
    "cache",
    "logs",
    "crash-reports",
    "world/playerdata",
    "world/stats",
    "world/advancements",
    "world/region",
)


def matches_any(text: str, patterns) -> list[str]:
    """Return the patterns found in ``text``, case-insensitively."""
    lowered = text.lower()
    return [p for p in patterns if p.lower() in lowered]


def contains_suspicious_content(content: str) -> bool:
    return bool(matches_any(content, SUSPICIOUS_CONTENT)) or bool(IPV4_WITH_PORT.search(content))


def is_legitimate_log(logs: str) -> bool:
    return bool(matches_any(logs, LEGITIMATE_LOG_PHRASES))
