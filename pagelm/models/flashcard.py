from pagelm.models.base import ApiModel


class SavedFlashcard(ApiModel):
    id: str
    question: str
    answer: str
    tag: str = ""
    created: int = 0


class FlashcardCreate(ApiModel):
    question: str
    answer: str
    tag: str = ""
