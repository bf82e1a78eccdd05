import io

from socketpipe.utils import debug


def test_dump_system_info():
    info = debug.dump_system_info()
    assert "Socketpipe:" in info
    assert "Python:" in info


def test_dump_stacks():
    cs = io.StringIO()
    debug.dump_stacks(None, None, file=cs)
    assert "# Thread: MainThread" in cs.getvalue()
    assert "test_dump_stacks" in cs.getvalue()


def test_register_info_dumpers(monkeypatch):
    installed = {}
    monkeypatch.setattr(debug.signal, "signal", lambda sig, handler: installed.update({sig: handler}))
    debug.register_info_dumpers()
    if hasattr(debug.signal, "SIGUSR2"):
        assert installed == {debug.signal.SIGUSR2: debug.dump_stacks}
    else:
        assert installed == {}
