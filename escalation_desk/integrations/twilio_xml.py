def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def twiml_say_and_dial(text: str, dial_number: str) -> str:
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        f"<Response><Say>{_escape(text)}</Say><Dial>{_escape(dial_number)}</Dial></Response>"
    )
