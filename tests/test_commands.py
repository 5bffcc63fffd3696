import pytest

from mcastevents.cli.commands import handle_command, print_menu


@pytest.fixture
def shell(make_emitter, collector):
    emitter = make_emitter(events={"alpha": 3000, "beta": 3000})
    printers = {}

    def printer(event):
        return printers.setdefault(event, collector())

    def run(line, **kwargs):
        return handle_command(line=line, emitter=emitter, printer=printer, **kwargs)

    run.emitter = emitter
    run.printers = printers
    return run


def test_quit(shell):
    assert shell("/quit") is False
    assert shell("/exit") is False


def test_on_emit_off(shell, capsys):
    assert shell("/on alpha")
    assert shell.emitter.has_listeners("alpha")
    assert "Listening to alpha on port 3000" in capsys.readouterr().out

    assert shell("/emit alpha hello there")
    assert shell.printers["alpha"].next() == ("hello there",)

    assert shell("/off alpha")
    assert not shell.emitter.has_channel("alpha")


def test_on_twice(shell, capsys):
    shell("/on alpha")
    shell("/on alpha")
    assert "Already listening" in capsys.readouterr().out
    assert len(shell.emitter.listeners("alpha")) == 1


def test_collision_is_reported(shell, capsys):
    shell("/on alpha")
    shell("/on beta")
    assert "Cannot listen" in capsys.readouterr().out
    assert not shell.emitter.has_channel("beta")


def test_off_unknown(shell, capsys):
    shell("/off gamma")
    assert "Not listening to gamma" in capsys.readouterr().out


def test_events(shell, capsys):
    shell("/events")
    assert "Not listening" in capsys.readouterr().out

    shell("/on alpha")
    shell("/events")
    out = capsys.readouterr().out
    assert f"{shell.emitter.get_address()}:3000" in out


def test_logs(shell, capsys):
    shell("/logs", logs=[])
    assert "No logs yet" in capsys.readouterr().out

    shell("/logs", logs=["12:00:00 hello"])
    assert "12:00:00 hello" in capsys.readouterr().out


def test_unknown(shell, capsys):
    assert shell("/dance")
    assert "Unknown command" in capsys.readouterr().out


def test_menu(shell, capsys):
    print_menu(shell.emitter, "10.0.0.1")
    out = capsys.readouterr().out
    assert "Interface: 10.0.0.1" in out
    assert "plaintext" in out


def test_emit_after_send_failure(shell, capsys):
    shell.emitter.fake_sender.fail_with = OSError("network is unreachable")
    shell("/emit alpha first")
    shell.emitter.flush(2)

    assert shell("/emit alpha second") is True
    assert "Cannot emit" in capsys.readouterr().out


def test_on_bind_failure(shell, capsys, monkeypatch):
    def refuse(address, port):
        raise OSError("address already in use")

    monkeypatch.setattr(shell.emitter.registry, "transport_factory", refuse)

    assert shell("/on gamma") is True
    assert "Cannot listen on gamma" in capsys.readouterr().out
    assert not shell.emitter.has_channel("gamma")
