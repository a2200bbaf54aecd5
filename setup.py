from setuptools import setup, find_packages

setup(
    name="monoslam",
    version="0.1.0",
    packages=find_packages(exclude=["examples"]),
    install_requires=[
        "numpy",
        "opencv-python",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
    },
    author="Nitin Thakkar",
    author_email="thakkarnitin1998@gmail.com",
    description="Two-view initialization and bundle adjustment for monocular visual SLAM",
    python_requires=">=3.7",
)
