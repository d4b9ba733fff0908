"""
Core building blocks: configuration, provider clients, storage and retry helpers.
"""
