# RankDeck: SEO dashboard backend with a Google Search Console connection.

__version__ = "0.4.0"
