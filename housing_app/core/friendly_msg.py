FRIENDLY_MESSAGES = {
    "IntegrityError": "This change conflicts with existing records.",
    "StaleDataError": "The record was changed by another request. Please retry.",
    "OperationalError": "Temporary issue while accessing data. Please try again shortly.",
    "ConnectionError": "Unable to connect to a required service. Please try again later.",
    "TimeoutError": "The request took too long. Please try again later.",
    "ValueError": "Invalid data received. Please check your input and try again.",
    "KeyError": "Some required information is missing.",
}


def get_friendly_message(error: Exception) -> str:
    for key, msg in FRIENDLY_MESSAGES.items():
        if key.lower() in type(error).__name__.lower():
            return msg
    return "Something went wrong on our end. Please try again."
