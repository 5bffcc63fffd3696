# mcastevents/cli/commands.py

from mcastevents.errors import PortCollisionError, SocketError


def print_menu(emitter, interface_ip):
    print("\n=== mcastevents ===")
    print(f"Emitter: {emitter.name}")
    print(f"Group: {emitter.config.group} ({emitter.get_address()})")
    print(f"Interface: {interface_ip}")
    security = f"encrypted ({emitter.config.cipher})" if emitter.cipher.enabled else "plaintext"
    print(f"Security: {security}")
    print("Commands: /menu /help /logs /events /on /off /emit /quit\n")


def print_help():
    print(
        "\nCommands:\n"
        "  /on <event>              Listen for an event\n"
        "  /off <event>             Stop listening for an event\n"
        "  /emit <event> <message>  Emit an event with a text argument\n"
        "  /events                  List events being listened to\n"
        "  /logs                    Show recent logs\n"
        "  /menu                    Show the main menu\n"
        "  /help                    Show this help\n"
        "  /quit                    Exit\n"
    )


def handle_command(line, emitter, printer, logs=None, show_menu=None):
    """
    Handle a single CLI command.
    Returns False if the app should exit.

    printer(event) returns the handler attached by /on and removed by /off.
    """
    if line in ("/quit", "/exit"):
        return False

    if line == "/menu":
        if show_menu:
            show_menu()
        else:
            print_help()
        return True

    if line == "/help":
        print_help()
        return True

    if line == "/logs":
        if not logs:
            print("No logs yet.")
            return True
        print("\nRecent logs:")
        for entry in logs:
            print(f"  {entry}")
        print()
        return True

    if line == "/events":
        events = emitter.registry.events()
        if not events:
            print("Not listening to any event.")
        else:
            print("\nEvents:")
            for event in events:
                print(f"  {event:<20} {emitter.get_address()}:{emitter.get_port(event)}")
            print()
        return True

    if line.startswith("/on "):
        event = line[len("/on "):].strip()
        if not event:
            print("Usage: /on <event>")
            return True
        if emitter.has_listeners(event):
            print(f"Already listening to {event}.")
            return True
        try:
            emitter.on(event, printer(event))
        except PortCollisionError as exc:
            print(f"Cannot listen: {exc}")
            return True
        except OSError as exc:
            print(f"Cannot listen on {event}: {exc}")
            return True
        print(f"Listening to {event} on port {emitter.get_port(event)}.")
        return True

    if line.startswith("/off "):
        event = line[len("/off "):].strip()
        if not event:
            print("Usage: /off <event>")
            return True
        if not emitter.has_listeners(event):
            print(f"Not listening to {event}.")
            return True
        emitter.off(event, printer(event))
        print(f"Stopped listening to {event}.")
        return True

    if line.startswith("/emit "):
        parts = line.split(maxsplit=2)
        if len(parts) < 2:
            print("Usage: /emit <event> <message>")
            return True

        event = parts[1]
        args = parts[2:]
        try:
            emitter.emit(event, *args)
        except SocketError as exc:
            print(f"Cannot emit: {exc}")
            return True
        print(f"Emitted {event}.")
        return True

    print("Unknown command. Type /help.")
    return True
