# Пустой файл для обозначения директории как пакет Python
