"""
Geeked CLI

Command-line interface for the captcha protocol client.

Usage:
    python -m geeked_cli solve <captcha_id> --type slide
    python -m geeked_cli constants show
    python -m geeked_cli constants refresh
    python -m geeked_cli constants invalidate <version>
    python -m geeked_cli config --init
"""

__version__ = "0.1.0"
