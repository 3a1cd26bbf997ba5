# classhub/models/toast.py
from pydantic import BaseModel

PERMISSION_DENIED_MESSAGE = "You do not have permission to perform this action."


class Toast(BaseModel):
    variant: str = "destructive"
    title: str = "Error"
    description: str = PERMISSION_DENIED_MESSAGE
