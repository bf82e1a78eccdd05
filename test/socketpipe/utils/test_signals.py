from unittest import mock

import pytest

from socketpipe.utils.signals import SyncSignal


def test_sync_signal() -> None:
    m = mock.Mock()

    s = SyncSignal()
    s.connect(m)
    s.send({"foo"})

    assert m.call_args_list == [mock.call({"foo"})]

    class Foo:
        called = None

        def bound(self, updated):
            self.called = updated

    f = Foo()
    s.connect(f.bound)
    s.send(updated={"bar"})
    assert f.called == {"bar"}
    assert m.call_args_list == [mock.call({"foo"}), mock.call(updated={"bar"})]

    s.disconnect(m)
    s.send({"baz"})
    assert f.called == {"baz"}
    assert m.call_count == 2

    def err(updated):
        raise RuntimeError

    s.connect(err)
    with pytest.raises(RuntimeError):
        s.send({"qux"})


def test_signal_weakref() -> None:
    def m1():
        pass

    def m2():
        pass

    s = SyncSignal()
    s.connect(m1)
    s.connect(m2)
    del m2
    s.send()
    assert len(s.receivers) == 1


def test_bound_method_dies_with_instance() -> None:
    class Receiver:
        def __init__(self):
            self.calls = 0

        def on_change(self, updated):
            self.calls += 1

    s = SyncSignal()
    r = Receiver()
    s.connect(r.on_change)
    s.send(updated={"dump_request"})
    assert r.calls == 1
    del r
    s.send(updated={"dump_request"})
    assert s.receivers == []
