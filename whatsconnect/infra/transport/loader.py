from functools import partial
from importlib import import_module

from whatsconnect.core.config import Settings
from whatsconnect.infra.transport.base import TransportFactory
from whatsconnect.infra.transport.loopback import LoopbackTransport


def import_factory(path: str) -> TransportFactory:
    module_name, separator, attribute = path.partition(":")
    if not separator or not module_name or not attribute:
        raise ValueError(
            f"Transport factory '{path}' must look like 'package.module:Factory'."
        )
    module = import_module(module_name)
    try:
        return getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Module '{module_name}' has no attribute '{attribute}'.") from exc


def build_transport_factory(settings: Settings) -> TransportFactory:
    factory = import_factory(settings.transport_factory)
    if factory is LoopbackTransport:
        return partial(LoopbackTransport, auto_pair=settings.loopback_auto_pair)
    return factory
