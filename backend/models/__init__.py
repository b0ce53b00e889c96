
from models.user import User
from models.course import Course, CourseModule, Lesson, Enrollment
from models.progress import LessonProgress
from models.points import PointsAccount, PointEvent
from models.community import Post, PostLike, Comment

__all__ = [
    "User",
    "Course", "CourseModule", "Lesson", "Enrollment",
    "LessonProgress",
    "PointsAccount", "PointEvent",
    "Post", "PostLike", "Comment",
]
