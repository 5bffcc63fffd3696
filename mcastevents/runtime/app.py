from collections import deque
import logging
import time

from mcastevents.cli.commands import handle_command, print_menu
from mcastevents.config.settings import Settings
from mcastevents.core.network import default_interface_ip
from mcastevents.emitter import EventEmitter
from mcastevents.errors import ConfigError


class LogBuffer(logging.Handler):
    """
    Keeps the last log lines for the /logs command.
    """

    def __init__(self, maxlen: int = 200):
        super().__init__()
        self.lines = deque(maxlen=maxlen)

    def emit(self, record):
        stamp = time.strftime("%H:%M:%S", time.localtime(record.created))
        self.lines.append(f"{stamp} {record.getMessage()}")


def main():
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}")
        return 2

    log_buffer = LogBuffer()
    root = logging.getLogger("mcastevents")
    root.addHandler(log_buffer)
    root.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    if settings.debug:
        logging.basicConfig(format="[%(name)s] %(message)s")

    emitter = EventEmitter(settings.emitter)
    interface_ip = settings.emitter.interface or default_interface_ip()
    root.info("%s using interface IP: %s", emitter.name, interface_ip)

    # event -> handler, so /off removes the handler /on added
    printers = {}

    def printer(event: str):
        if event not in printers:
            def on_event(*args):
                print(f"\n[{event}] {' '.join(str(a) for a in args)}")
                print("> ", end="", flush=True)
                root.info('received "%s" %r', event, args)

            printers[event] = on_event
        return printers[event]

    def show_menu():
        print_menu(emitter, interface_ip)

    show_menu()

    try:
        while True:
            line = input("> ").strip()
            if not line:
                continue

            should_continue = handle_command(
                line=line,
                emitter=emitter,
                printer=printer,
                logs=log_buffer.lines,
                show_menu=show_menu,
            )

            if not should_continue:
                break

    except (KeyboardInterrupt, EOFError):
        pass
    finally:
        print("\nExiting...")
        emitter.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
