"""
ObsiGram: chat-to-vault note capture.

A capture pipeline that provides:
- Buffered capture of links and free text from Telegram
- Heuristic classification into existing vault folders
- Agent-driven drafting with folder and graph-link repair
"""

__version__ = "0.1.0"
