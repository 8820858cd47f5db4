import abc
from typing import Iterator

from mediaseg.utils.types import SampledFrame


class BaseInput(abc.ABC):
    @abc.abstractmethod
    def start(self) -> None:
        ...

    @abc.abstractmethod
    def stop(self) -> None:
        ...

    @abc.abstractmethod
    def frames(self) -> Iterator[SampledFrame]:
        ...
