"""
Crypto Daily Newsletter

A daily automated email that explains 24h price movements of tracked
cryptocurrencies from CoinGecko market data and CryptoPanic news, summarized
by a local LLM (Ollama) using only the supplied facts.
"""

__version__ = "1.0.0"
