"""Static metadata describing ClassFlow."""

APP_NAME = "ClassFlow"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ClassFlow is the academic workflow engine behind the classroom dashboards. "
    "It decides class join requests, tracks assignment submissions and runs timed exams "
    "with automatic grading, and exposes those commands over a small FastAPI surface."
)
