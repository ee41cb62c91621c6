from .schools import School
from .users import SchoolUser
from .classes import SchoolClass, Stream
from .subjects import SchoolSubject
