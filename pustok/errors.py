class NotFoundError(KeyError):
    entity = "Entity"

    def __init__(self, entity_id: int):
        super().__init__(entity_id)
        self.entity_id = entity_id

    def __str__(self) -> str:
        return f"{self.entity} not found"


class SliderNotFound(NotFoundError):
    entity = "Slider"


class BookNotFound(NotFoundError):
    entity = "Book"


class AssetWriteError(RuntimeError):
    pass
