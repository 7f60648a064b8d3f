# RankDeck backend API layer.
# Created: 2026-10-08
#
# Versioned REST endpoints under /api/v1/ plus the OAuth /callback page.
