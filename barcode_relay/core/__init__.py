from .logging_utils import get_module_logger
from .relay_config import ConfigError, RelayConfig, load_config, parse_vendor_id
from .pipeline import ScanPipeline
from .devices import DeviceWatcher, ProductSelector, start_watching
from .delivery import DeliverySender, DurableQueue, SenderConfig

__all__ = [
    'get_module_logger',
    'ConfigError',
    'RelayConfig',
    'load_config',
    'parse_vendor_id',
    'ScanPipeline',
    'DeviceWatcher',
    'ProductSelector',
    'start_watching',
    'DeliverySender',
    'DurableQueue',
    'SenderConfig',
]
