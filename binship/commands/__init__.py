"""binship CLI commands"""
