# Error Helper
# Uniform exception text for the diagnostic log, results and last error

def describe_exception(e: BaseException) -> str:
    """Exception class name plus message, e.g. 'ConnectionRefusedError: [Errno 111] ...'"""
    text = str(e)
    return f"{type(e).__name__}: {text}" if text else type(e).__name__
