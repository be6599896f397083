"""
Utils Module - Logging and Error Classification
===============================================

Modules:
    logger: Console and JSON structured logging with optional rotating error log
    errors: Transport error taxonomy and the default retriable classifier
"""
