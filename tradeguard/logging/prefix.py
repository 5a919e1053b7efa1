LOG_PREFIX = {
    "GATEWAY": "🔌 GATEWAY |",
    "RETRY":   "🔁 RETRY |",
    "ORDER":   "📦 ORDER |",
    "TRAIL":   "📈 TRAIL |",
    "SYMBOL":  "📐 SYMBOL |",
}
