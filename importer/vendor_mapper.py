"""
Vendor mapping loader.

The mapping file is read once at startup; any problem with it is fatal.

Example (config/vendor-mapper.yml):

    vendorID: 3
    vendorName: acme
    sqlBase: INSERT INTO acme_usage (account, service, quantity, usage_date, created_by) VALUES
    sqlValues: (?, ?, ?, ?, ?)
    columnMappers:
      account:  {tableIndex: 0, csvIndex: 2}
      service:  {tableIndex: 1, csvIndex: 0}
      quantity: {tableIndex: 2, csvIndex: 3}
      date:     {tableIndex: 3, csvIndex: 1}
"""

from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import ConfigurationError
from schemas.vendor import VendorMapper
import logging

logger = logging.getLogger(__name__)


def load_vendor_mapper(path) -> VendorMapper:
    """Read and validate the vendor mapping YAML file"""
    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(
            "Vendor mapping file cannot be read",
            context={"path": str(path)},
            original_exception=e
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(
            "Vendor mapping file is not valid YAML",
            context={"path": str(path)},
            original_exception=e
        )

    if not isinstance(raw, dict):
        raise ConfigurationError(
            "Vendor mapping file must hold a mapping",
            context={"path": str(path)}
        )

    try:
        mapper = VendorMapper.model_validate(raw)
    except PydanticValidationError as e:
        raise ConfigurationError(
            "Vendor mapping file is invalid",
            context={"path": str(path), "errors": e.error_count()},
            original_exception=e
        )

    logger.info(
        f"Loaded vendor mapping for {mapper.vendor_name} (vendor_id={mapper.vendor_id}, "
        f"{len(mapper.column_mappers)} columns)"
    )
    return mapper
