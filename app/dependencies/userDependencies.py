from typing import Annotated
from fastapi import Depends
from app.modules.auth.utils import get_current_employee
from app.modules.employees.models import Employee

employee_dependency = Annotated[Employee, Depends(get_current_employee)]
