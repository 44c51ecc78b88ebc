import logging

from pydantic import BaseModel, ConfigDict


class CoverageBaseModel(BaseModel):
    # Configuration and lifecycle models reject unknown keys so typos in a
    # config file fail at startup. Coverage payload models override this.
    model_config = ConfigDict(extra='forbid', populate_by_name=True)


class BaseObject(BaseModel):
    """Base for pipeline components: pydantic fields plus per-class logging helpers."""

    model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"v8coveragelib.{self.__class__.__name__}")

    def debug(self, msg: str, *args, **kwargs) -> None:
        self.logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self.logger.info(msg, *args, **kwargs)

    def warn(self, msg: str, *args, **kwargs) -> None:
        self.logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        self.logger.error(msg, *args, **kwargs)
