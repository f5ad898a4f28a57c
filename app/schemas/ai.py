from pydantic import BaseModel


class ConvertRulesRequest(BaseModel):
    naturalLanguage: str | None = None


class GenerateMessageRequest(BaseModel):
    objective: str
    audienceDescription: str = ""


class MessageSuggestion(BaseModel):
    type: str
    message: str
    engagement: str
